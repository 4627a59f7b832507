"""Gather the architectures a bundle claims, from labels, annotations and image manifests."""

from collections import namedtuple
from typing import Any, List, Mapping

from multiarch_audit.inspector import InspectError
from multiarch_audit.util import dbg, error, indented_output

# Labels of the form "operatorframework.io/arch.<arch>": "supported"
ARCH_LABEL_PREFIX = "operatorframework.io/arch."
ARCH_LABEL_VALUE = "supported"

# CSV annotation listing infrastructure features, e.g. '["disconnected"]'
INFRASTRUCTURE_ANNOTATION = "operators.openshift.io/infrastructure-features"

# Flattened metadata of one published bundle, produced by the loader.
BundleRecord = namedtuple("BundleRecord", [
    "name",
    "package_name",
    "channels",
    "is_head_of_channel",
    "version",
    "labels",
    "annotations",
    "related_images",
    "install_images",
    "errors",
])


class MultiArchBundle:
    """Multi-architecture facts and findings derived from one BundleRecord."""

    def __init__(self, record: BundleRecord) -> None:
        """Start with empty facts, copying any errors collected upstream."""
        self.record = record
        self.infra_labels = []
        self.has_disconnect_annotation = False
        # Image reference versus list of "<os>.<arch>" manifest platforms
        self.related_images = {}
        self.install_images = {}
        self.supported = set()
        self.errors = list(record.errors)
        self.validations = []

    @property
    def name(self) -> str:
        return self.record.name

    @property
    def has_multiarch_support(self) -> bool:
        """More than one distinct architecture token is claimed."""
        return len(self.supported) > 1

    def as_dict(self) -> Mapping[str, Any]:
        """Return JSON-friendly representation of this bundle."""
        return {
            "name": self.record.name,
            "package_name": self.record.package_name,
            "version": self.record.version,
            "channels": list(self.record.channels),
            "infra_labels": list(self.infra_labels),
            "has_disconnect_annotation": self.has_disconnect_annotation,
            "related_images": {k: list(v) for k, v in self.related_images.items()},
            "install_images": {k: list(v) for k, v in self.install_images.items()},
            "supported": sorted(self.supported),
            "has_multiarch_support": self.has_multiarch_support,
            "errors": list(self.errors),
            "validations": list(self.validations),
        }


def label_token(label: str) -> str:
    """Return the bare architecture from an arch-support label name."""
    return label.replace(ARCH_LABEL_PREFIX, "")


def platform_token(platform: str) -> str:
    """
    Return the architecture part of an "<os>.<arch>" platform string.

    Everything after the first "." is the architecture, a string without
    any "." is taken whole.  Beware, an OS name containing a "." will
    produce a bogus architecture.
    """
    if "." in platform:
        return platform.split(".", 1)[1]
    return platform


def infra_labels(labels: Mapping[str, str]) -> List[str]:
    """Return label names matching the arch-support convention, in input order."""
    return [k for k, v in labels.items() if "arch" in k and v == ARCH_LABEL_VALUE]


def has_disconnect_annotation(annotations: Mapping[str, str]) -> bool:
    """Return True when the infrastructure annotation mentions disconnected support."""
    infra = annotations.get(INFRASTRUCTURE_ANNOTATION, "")
    return "disconnected" in str(infra).lower()


def platform_strings(platforms):
    """Return "<os>.<arch>" strings for a list of Platforms."""
    return [f"{p.os}.{p.architecture}" for p in platforms]


def add_install_images(bundle: MultiArchBundle, inspector) -> None:
    """Record manifest platforms for images the bundle installs, failures only logged."""
    for image in bundle.record.install_images:
        with indented_output(f"Inspecting install image '{image}'"):
            # Failed inspections still leave an (empty) entry for later checks
            recorded = bundle.install_images.setdefault(image, [])
            try:
                platforms = inspector(image)
            except InspectError as xcpt:
                bundle.errors.append(str(xcpt))
                error(f"unable to inspect manifests for the container image ({image}) : {xcpt}")
                continue
            recorded.extend(platform_strings(platforms))


def add_related_images(bundle: MultiArchBundle, inspector) -> None:
    """Record manifest platforms for related images, failures also become findings."""
    for image in bundle.record.related_images:
        with indented_output(f"Inspecting related image '{image}'"):
            # Failed inspections still leave an (empty) entry for later checks
            recorded = bundle.related_images.setdefault(image, [])
            try:
                platforms = inspector(image)
            except InspectError as xcpt:
                bundle.errors.append(str(xcpt))
                msg = f"unable to inspect manifests for the image ({image}) : {xcpt}"
                error(msg)
                bundle.validations.append(msg)
                continue
            recorded.extend(platform_strings(platforms))


def supported_archs(bundle: MultiArchBundle) -> set:
    """Return architecture tokens from infrastructure labels and all manifest platforms."""
    result = set(label_token(label) for label in bundle.infra_labels)
    for images in (bundle.related_images, bundle.install_images):
        for platforms in images.values():
            for platform in platforms:
                # N/B: items w/o an architecture ("linux." or ".") add an empty token
                if len(platform):
                    result.add(platform_token(platform))
    return result


def extract(record: BundleRecord, inspector) -> MultiArchBundle:
    """Return a new MultiArchBundle populated from record, never raises InspectError."""
    bundle = MultiArchBundle(record)
    with indented_output(f"Extracting multi-arch data from bundle '{record.name}'"):
        bundle.infra_labels = infra_labels(record.labels)
        bundle.has_disconnect_annotation = has_disconnect_annotation(record.annotations)
        add_install_images(bundle, inspector)
        add_related_images(bundle, inspector)
        bundle.supported = supported_archs(bundle)
        dbg(f"Supported architectures: {sorted(bundle.supported)}")
    return bundle
