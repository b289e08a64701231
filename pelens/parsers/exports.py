"""
Export Table Reader
====================

Resolves ``IMAGE_EXPORT_DIRECTORY`` through data directory slot 0 and
produces the exported functions sorted by ordinal.

Directory fields read (offsets from the directory start)::

    +0x10  Base                   ordinal bias
    +0x14  NumberOfFunctions      entries in the export address table
    +0x18  NumberOfNames          entries in the name pointer / ordinal tables
    +0x1C  AddressOfFunctions     RVA of the export address table (u32 each)
    +0x20  AddressOfNames         RVA of the name pointer table (u32 each)
    +0x24  AddressOfNameOrdinals  RVA of the ordinal table (u16 each)

Every address table entry becomes an :class:`ExportFunction`.  Name
pointer ``i`` pairs with ordinal table entry ``i``, which indexes the
address table; that entry receives the name and ``index + Base`` as its
ordinal.  Address table entries no name refers to keep ordinal 0 and an
empty name.

References:
    - Microsoft. (2024). PE Format, "The .edata Section". Microsoft Learn.
"""

from __future__ import annotations

import struct

from pelens.core.models import ExportFunction, SkipReason, TableKind
from pelens.parsers.context import TableContext
from pelens.parsers.headers import IMAGE_DIRECTORY_ENTRY_EXPORT, read_data_directory


_EXPORT_FIELDS = struct.Struct("<6I")
_EXPORT_FIELDS_OFFSET: int = 0x10


def read_export_table(ctx: TableContext) -> list[ExportFunction]:
    """Parse the export directory.

    Returns:
        Exported functions sorted by ascending ordinal (stable), or an empty
        list when the export directory size is zero.

    Raises:
        DirectoryUnresolvedError: The directory or one of its three tables
            maps to no section.
        PEIOError: A directory or table read runs past end-of-file.
    """
    source = ctx.source
    directory = read_data_directory(source, ctx.headers, IMAGE_DIRECTORY_ENTRY_EXPORT)
    if directory.is_empty:
        ctx.logger.debug("No export directory")
        return []

    export_offset = ctx.require(directory.rva, "export directory")
    (
        ordinal_base,
        address_count,
        name_count,
        address_table_rva,
        name_table_rva,
        ordinal_table_rva,
    ) = _EXPORT_FIELDS.unpack(
        source.read(export_offset + _EXPORT_FIELDS_OFFSET, _EXPORT_FIELDS.size, "export directory")
    )

    address_offset = ctx.require(address_table_rva, "export address table")
    name_offset = ctx.require(name_table_rva, "export name pointer table")
    ordinal_offset = ctx.require(ordinal_table_rva, "export ordinal table")

    ctx.logger.debug(
        "Export directory at 0x%X: base=%d functions=%d names=%d",
        export_offset, ordinal_base, address_count, name_count,
    )

    # Export address table
    address_count = ctx.bounded_count(
        TableKind.EXPORT, "export address table", address_count, address_offset, 4
    )
    addresses = list(struct.unpack(
        f"<{address_count}I",
        source.read(address_offset, address_count * 4, "export address table"),
    ))

    # Name pointer table and ordinal table share NumberOfNames
    name_count = ctx.bounded_count(
        TableKind.EXPORT, "export name pointer table", name_count, name_offset, 4
    )
    name_count = ctx.bounded_count(
        TableKind.EXPORT, "export ordinal table", name_count, ordinal_offset, 2
    )

    name_rvas = struct.unpack(
        f"<{name_count}I",
        source.read(name_offset, name_count * 4, "export name pointer table"),
    )
    names: list[str] = []
    for i, name_rva in enumerate(name_rvas):
        offset = ctx.translate(name_rva)
        if offset is None:
            ctx.skip(
                TableKind.EXPORT,
                SkipReason.EXPORT_NAME,
                index=i,
                rva=name_rva,
                detail="export name RVA maps to no section",
            )
            names.append("")
            continue
        names.append(ctx.read_name(offset, "export name"))

    ordinals = struct.unpack(
        f"<{name_count}H",
        source.read(ordinal_offset, name_count * 2, "export ordinal table"),
    )

    # Link names and biased ordinals onto the address-indexed entries
    linked_names = [""] * address_count
    linked_ordinals = [0] * address_count
    for i, index in enumerate(ordinals):
        if index >= address_count:
            ctx.skip(
                TableKind.EXPORT,
                SkipReason.EXPORT_ORDINAL_INDEX,
                index=i,
                rva=index,
                detail=f"ordinal table index {index} outside address table "
                       f"of {address_count} entries",
            )
            continue
        linked_names[index] = names[i]
        linked_ordinals[index] = (index + ordinal_base) & 0xFFFFFFFF

    exports = [
        ExportFunction(name=name, ordinal=ordinal, address_rva=address)
        for name, ordinal, address in zip(linked_names, linked_ordinals, addresses)
    ]
    exports.sort(key=lambda func: func.ordinal)
    return exports
