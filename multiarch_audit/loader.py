"""Load flattened bundle records and index image details from a YAML (or JSON) dump."""

from typing import Any, List, Mapping, Tuple

# Ref: https://dateutil.readthedocs.io/en/stable/index.html
import dateutil.parser

import yaml

from multiarch_audit.aggregator import IndexImage
from multiarch_audit.extractor import BundleRecord
from multiarch_audit.util import dbg, warn


class LoadError(ValueError):
    """The bundle dump is malformed."""


def _images(items) -> List[str]:
    """Accept either plain image references or CSV-style {"image": ...} items."""
    result = []
    for item in items or []:
        if isinstance(item, dict):
            item = item.get("image")
        if item:
            result.append(str(item))
    return result


def _mapping(bundle: Mapping[str, Any], key: str) -> Mapping[str, str]:
    value = bundle.get(key) or {}
    if not isinstance(value, dict):
        raise LoadError(f"Expecting '{key}' of bundle '{bundle.get('name')}' to be a mapping,"
                        f" not a {value.__class__.__name__}")
    return {str(k): str(v) for k, v in value.items()}


def bundle_record(bundle: Mapping[str, Any]) -> BundleRecord:
    """Return a BundleRecord from one item of the 'bundles' list."""
    if not isinstance(bundle, dict):
        raise LoadError(f"Expecting bundle item to be a mapping: {bundle}")
    for required in ("name", "package_name"):
        if not bundle.get(required):
            raise LoadError(f"Missing '{required}' in bundle item: {bundle}")
    is_head = bundle.get("is_head_of_channel", False)
    if not isinstance(is_head, bool):
        raise LoadError(f"Expecting 'is_head_of_channel' of bundle '{bundle['name']}' to be"
                        f" true or false, not {is_head!r}")
    return BundleRecord(
        name=str(bundle["name"]),
        package_name=str(bundle["package_name"]),
        channels=tuple(bundle.get("channels") or ()),
        is_head_of_channel=is_head,
        version=str(bundle.get("version") or ""),
        labels=_mapping(bundle, "labels"),
        annotations=_mapping(bundle, "annotations"),
        related_images=tuple(_images(bundle.get("related_images"))),
        install_images=tuple(_images(bundle.get("install_images"))),
        errors=tuple(str(e) for e in bundle.get("errors") or ()),
    )


def build_timestamp(value) -> str:
    """Return value normalized to ISO-8601, or unmodified when unparsable."""
    if not value:
        return ""
    try:
        return dateutil.parser.isoparse(str(value)).isoformat()
    except ValueError:
        warn(f"Index image build timestamp '{value}' is not ISO-8601, using as-is")
        return str(value)


def index_image(details: Mapping[str, Any]) -> IndexImage:
    """Return IndexImage from the 'index_image' mapping."""
    return IndexImage(
        name=str(details.get("name") or ""),
        image_id=str(details.get("id") or ""),
        build=build_timestamp(details.get("created")),
        hash=str(details.get("hash") or ""),
    )


def load(stream) -> Tuple[IndexImage, List[BundleRecord]]:
    """Parse a document from stream, returning index image details and bundle records."""
    try:
        doc = yaml.safe_load(stream)
    except yaml.YAMLError as xcpt:
        raise LoadError(f"Document does not parse as YAML: {xcpt}") from xcpt
    if not isinstance(doc, dict):
        raise LoadError(f"Expecting a mapping document, not a {doc.__class__.__name__}")
    details = doc.get("index_image") or {}
    if not isinstance(details, dict):
        raise LoadError("Expecting 'index_image' to be a mapping")
    records = [bundle_record(bundle) for bundle in doc.get("bundles") or []]
    dbg(f"Loaded {len(records)} bundle record(s)")
    return index_image(details), records
