"""Package descriptors, links and their dict (de)serialisation."""

from .loader import (
    dump_package,
    load_package,
    load_packages,
    load_root_alias,
    load_root_package,
)
from .models import (
    AliasPackage,
    Link,
    LinkType,
    Package,
    RootAlias,
    RootPackage,
    is_platform_name,
    make_alias,
)

__all__ = [
    "AliasPackage",
    "Link",
    "LinkType",
    "Package",
    "RootAlias",
    "RootPackage",
    "dump_package",
    "is_platform_name",
    "load_package",
    "load_packages",
    "load_root_alias",
    "load_root_package",
    "make_alias",
]
