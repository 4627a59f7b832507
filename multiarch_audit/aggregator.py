"""Assemble the multi-architecture report over the head bundle of every package."""

from collections import namedtuple
from datetime import datetime
from typing import Any, List, Mapping, Sequence

# Ref: https://dateutil.readthedocs.io/en/stable/index.html
import dateutil.tz

from multiarch_audit.extractor import BundleRecord
from multiarch_audit.util import dbg, indented_output
from multiarch_audit.validator import audit_bundle

# Identity of the index image the bundle records were extracted from
IndexImage = namedtuple("IndexImage", ["name", "image_id", "build", "hash"], defaults=("", "", ""))

MultiArchPackage = namedtuple("MultiArchPackage", ["name", "bundles"])


class MultiArchReport:
    """Index image identity plus audited head bundles grouped per package."""

    def __init__(self, index_image: IndexImage, generated_at: str,
                 packages: List[MultiArchPackage]) -> None:
        """Create a report, packages are expected sorted by name."""
        self.image_name = index_image.name
        self.image_id = index_image.image_id
        self.image_build = index_image.build
        self.image_hash = index_image.hash
        self.generated_at = generated_at
        self.packages = packages

    def as_dict(self) -> Mapping[str, Any]:
        """Return JSON-friendly representation of the whole report."""
        return {
            "image_name": self.image_name,
            "image_id": self.image_id,
            "image_hash": self.image_hash,
            "image_build": self.image_build,
            "generated_at": self.generated_at,
            "packages": [{"name": pkg.name, "bundles": [b.as_dict() for b in pkg.bundles]}
                         for pkg in self.packages],
        }


def utc_now() -> str:
    """Return the current time as an ISO-8601 UTC timestamp."""
    return datetime.now(dateutil.tz.UTC).isoformat()


def head_bundles_per_package(records: Sequence[BundleRecord]) -> Mapping[str, List[BundleRecord]]:
    """Return head-of-channel records keyed by package name."""
    result = dict()
    for record in records:
        if record.is_head_of_channel:
            result.setdefault(record.package_name, []).append(record)
    return result


def build_report(records: Sequence[BundleRecord], index_image: IndexImage, inspector,
                 name_filter: str = "", generated_at: str = None) -> MultiArchReport:
    """
    Audit the head bundles of every package and return a MultiArchReport.

    When name_filter is non-empty, bundles whose package name does not
    contain it are skipped before any manifest is inspected.  Packages
    without any remaining bundle are left out of the report.
    """
    if generated_at is None:
        generated_at = utc_now()

    audited = dict()
    for pkg_name, pkg_records in head_bundles_per_package(records).items():
        if name_filter and name_filter not in pkg_name:
            dbg(f"Skipping package '{pkg_name}', doesn't match filter '{name_filter}'")
            continue
        with indented_output(f"Auditing {len(pkg_records)} head bundle(s) of package '{pkg_name}'"):
            for record in pkg_records:
                audited.setdefault(pkg_name, []).append(audit_bundle(record, inspector))

    packages = [MultiArchPackage(name, audited[name]) for name in sorted(audited)]
    return MultiArchReport(index_image, generated_at, packages)
