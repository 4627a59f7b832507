"""
Cross-check the architectures a bundle claims against its image manifests.

Every check returns a (possibly empty) list of human-readable findings and
produces nothing unless the bundle claims more than one architecture.
"""

from typing import List

from multiarch_audit.extractor import BundleRecord, MultiArchBundle, extract
from multiarch_audit.util import dbg, indented_output

# Image roles as shown in findings, paired with the MultiArchBundle attribute
RELATED = "related"
INSTALL = "install"


def _images_by_role(bundle: MultiArchBundle):
    return ((RELATED, bundle.related_images), (INSTALL, bundle.install_images))


def check_sha(bundle: MultiArchBundle) -> List[str]:
    """Every image must be referenced by digest."""
    findings = []
    if bundle.has_multiarch_support:
        for role, images in _images_by_role(bundle):
            for image in images:
                if "@sha256" not in image:
                    findings.append(f"[bundle {bundle.name}]: {role} image ({image}) is not set using SHA")
    return findings


def check_labels(bundle: MultiArchBundle) -> List[str]:
    """Every supported architecture must have an infrastructure label."""
    if not bundle.has_multiarch_support:
        return []
    not_found = [arch for arch in sorted(bundle.supported)
                 if not any(arch in label for label in bundle.infra_labels)]
    if not_found:
        return [f"[bundle {bundle.name}]: missing label for {not_found}"]
    return []


def check_annotation(bundle: MultiArchBundle) -> List[str]:
    """Multi-arch bundles must carry the disconnected infrastructure annotation."""
    if bundle.has_multiarch_support and not bundle.has_disconnect_annotation:
        return [f'found multiarch support for the bundle ("{bundle.name}"), however'
                f' it is missing the CSV disconnected annotation']
    return []


def check_missing_archtype(bundle: MultiArchBundle) -> List[str]:
    """Every image must provide a manifest for every supported architecture."""
    findings = []
    if not bundle.has_multiarch_support:
        return findings
    for role, images in _images_by_role(bundle):
        for image, platforms in images.items():
            for arch in sorted(bundle.supported):
                if not any(arch in platform for platform in platforms):
                    findings.append(f"[bundle {bundle.name}]: {role} image ({image})"
                                    f" is missing manifest archetype for {arch}")
    return findings


# Order is significant, findings are reported in this sequence.
checks = (
    ("SHA", check_sha),
    ("Labels", check_labels),
    ("Annotation", check_annotation),
    ("Missing Archetype", check_missing_archtype),
)


def validate(bundle: MultiArchBundle) -> List[str]:
    """Return findings from every check, in order, without modifying bundle."""
    findings = []
    for check_name, check_fn in checks:
        with indented_output(f"Executing '{check_name}' check on '{bundle.name}'"):
            result = check_fn(bundle)
            dbg(f"Found {len(result)} problem(s)")
            findings.extend(result)
    return findings


def audit_bundle(record: BundleRecord, inspector) -> MultiArchBundle:
    """Extract then validate record, returning the finished MultiArchBundle."""
    bundle = extract(record, inspector)
    bundle.validations.extend(validate(bundle))
    return bundle
