"""
Import Table Reader
====================

Resolves the import descriptor array through data directory slot 1 and
produces one :class:`ImportTableEntry` per library.

Each ``IMAGE_IMPORT_DESCRIPTOR`` is 20 bytes::

    +0   OriginalFirstThunk  RVA of the import lookup table
    +4   TimeDateStamp
    +8   ForwarderChain
    +12  Name                RVA of the library name
    +16  FirstThunk          RVA of the import address table

The number of descriptors visited is ``size // 20`` of the data directory.
A descriptor whose lookup table or name cannot be located is skipped; the
rest of the table is still read.

Lookup table entries are 4 bytes (PE32) or 8 bytes (PE32+) and end at the
first zero entry.  With the top bit set an entry imports by ordinal (low
16 bits); otherwise the remaining bits are the RVA of a hint/name pair::

    +0  Hint  (u16)
    +2  Name  (NUL-terminated)

References:
    - Microsoft. (2024). PE Format, "The .idata Section". Microsoft Learn.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass

from pelens.core.models import ImportFunction, ImportTableEntry, SkipReason, TableKind
from pelens.parsers.context import TableContext
from pelens.parsers.headers import IMAGE_DIRECTORY_ENTRY_IMPORT, read_data_directory


IMPORT_DESCRIPTOR_SIZE: int = 20

_DESCRIPTOR_FIELDS = struct.Struct("<5I")


@dataclass(frozen=True, slots=True)
class _ThunkFormat:
    """Width-specific layout of an import lookup table entry."""
    entry_size: int
    ordinal_flag: int

    @property
    def rva_mask(self) -> int:
        return self.ordinal_flag - 1

    def unpack(self, raw: bytes) -> int:
        return int.from_bytes(raw, "little")


_THUNK32 = _ThunkFormat(entry_size=4, ordinal_flag=1 << 31)
_THUNK64 = _ThunkFormat(entry_size=8, ordinal_flag=1 << 63)


def read_import_table(ctx: TableContext) -> list[ImportTableEntry]:
    """Parse the import descriptor array.

    Returns:
        One entry per resolvable descriptor, in descriptor order, or an empty
        list when the import directory size is zero.

    Raises:
        DirectoryUnresolvedError: The import directory maps to no section.
        PEIOError: A descriptor, lookup entry or string runs past end-of-file.
    """
    source = ctx.source
    directory = read_data_directory(source, ctx.headers, IMAGE_DIRECTORY_ENTRY_IMPORT)
    if directory.is_empty:
        ctx.logger.debug("No import directory")
        return []

    import_offset = ctx.require(directory.rva, "import directory")
    descriptor_count = ctx.bounded_count(
        TableKind.IMPORT,
        "import descriptor",
        directory.size // IMPORT_DESCRIPTOR_SIZE,
        import_offset,
        IMPORT_DESCRIPTOR_SIZE,
    )
    thunk = _THUNK64 if ctx.headers.is_64bit else _THUNK32

    ctx.logger.debug(
        "Import directory at 0x%X: %d descriptors, %d-byte lookup entries",
        import_offset, descriptor_count, thunk.entry_size,
    )

    entries: list[ImportTableEntry] = []
    for i in range(descriptor_count):
        raw = source.read(
            import_offset + i * IMPORT_DESCRIPTOR_SIZE,
            IMPORT_DESCRIPTOR_SIZE,
            "import descriptor",
        )
        fields = _DESCRIPTOR_FIELDS.unpack(raw)
        lookup_table_rva = fields[0]
        name_rva = fields[3]

        # All-zero record terminates the array by convention
        if not any(fields):
            continue

        lookup_offset = ctx.translate(lookup_table_rva)
        if lookup_offset is None:
            ctx.skip(
                TableKind.IMPORT,
                SkipReason.IMPORT_DESCRIPTOR,
                index=i,
                rva=lookup_table_rva,
                detail="import lookup table RVA maps to no section",
            )
            continue

        name_offset = ctx.translate(name_rva)
        if name_offset is None:
            ctx.skip(
                TableKind.IMPORT,
                SkipReason.IMPORT_DESCRIPTOR,
                index=i,
                rva=name_rva,
                detail="library name RVA maps to no section",
            )
            continue

        library_name = ctx.read_name(name_offset, "import library name")
        functions = _walk_lookup_table(ctx, thunk, lookup_offset, library_name)
        functions.sort(key=lambda func: func.hint)
        entries.append(ImportTableEntry(library_name=library_name, functions=functions))

    return entries


def _walk_lookup_table(
    ctx: TableContext,
    thunk: _ThunkFormat,
    offset: int,
    library_name: str,
) -> list[ImportFunction]:
    """Read lookup entries from *offset* until the zero terminator."""
    source = ctx.source
    functions: list[ImportFunction] = []

    for index in range(ctx.max_table_entries):
        entry_offset = offset + index * thunk.entry_size
        value = thunk.unpack(source.read(entry_offset, thunk.entry_size, "import lookup table"))
        if value == 0:
            return functions

        if value & thunk.ordinal_flag:
            functions.append(ImportFunction(
                name="", is_ordinal=True, ordinal=value & 0xFFFF, hint=0,
            ))
            continue

        hint_name_rva = value & thunk.rva_mask
        hint_name_offset = ctx.translate(hint_name_rva)
        if hint_name_offset is None:
            ctx.skip(
                TableKind.IMPORT,
                SkipReason.IMPORT_HINT_NAME,
                index=index,
                rva=hint_name_rva,
                detail=f"hint/name RVA in {library_name} maps to no section",
            )
            continue

        hint = source.read_u16(hint_name_offset, "import hint")
        name = ctx.read_name(hint_name_offset + 2, "import name")
        functions.append(ImportFunction(name=name, is_ordinal=False, ordinal=0, hint=hint))

    ctx.skip(
        TableKind.IMPORT,
        SkipReason.COUNT_CAPPED,
        rva=ctx.max_table_entries,
        detail=f"lookup table of {library_name} has no terminator within "
               f"{ctx.max_table_entries} entries",
    )
    return functions
