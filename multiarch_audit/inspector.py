"""
Query a container engine for the platforms present in an image manifest-list.

The engine is treated as an unreliable external tool: every inspection is
wrapped by a RetryPolicy, which (by default) makes exactly one more attempt
with identical arguments before giving up.
"""

import json
import os
import shlex
from collections import namedtuple

from multiarch_audit.util import CONTAINER_ENGINES, DEFAULT_ENGINE, dbg

# One (os, architecture) pair from a manifest-list item
Platform = namedtuple("Platform", ["os", "architecture"])


class InspectError(RuntimeError):
    """A manifest inspection could not produce a platform list."""


def engine_cmd(engine, image):
    """Execute `<engine> manifest inspect <image>`, return parsed JSON output."""
    cmd = f"command {engine} manifest inspect {shlex.quote(image)}"
    dbg(f"Executing '{cmd}'")
    engine_pipe = os.popen(cmd)
    try:
        engine_output = engine_pipe.read()
    finally:
        engine_exit = engine_pipe.close()
    # os.popen() exit status is None on success
    if engine_exit is not None:
        dbg(f"{engine} exit({engine_exit}) output: {engine_output}")
        raise InspectError(f"{engine} manifest inspect of '{image}' exited non-zero: {engine_exit}")
    try:
        return json.loads(engine_output)
    except json.decoder.JSONDecodeError:
        raise InspectError(f"{engine} manifest inspect output for '{image}'"
                           f" does not parse as JSON: '{engine_output}'")


def manifest_platforms(manifest):
    """Return a Platform for every item in a manifest-list's 'manifests' list."""
    if not isinstance(manifest, dict):
        raise InspectError(f"Expecting manifest JSON object, not a {manifest.__class__.__name__}")
    result = []
    # Simple images have no 'manifests' list, thus no platforms to report.
    for item in manifest.get("manifests") or []:
        platform = item.get("platform") or {}
        result.append(Platform(platform.get("os", ""), platform.get("architecture", "")))
    return result


def inspect_manifest(image, engine=DEFAULT_ENGINE):
    """Single attempt: return list of Platforms for image or raise InspectError."""
    return manifest_platforms(engine_cmd(engine, image))


class RetryPolicy:
    """Call a function up to 'attempts' times, no backoff between attempts."""

    def __init__(self, attempts: int = 2) -> None:
        """Create a policy permitting 'attempts' calls in total."""
        if attempts < 1:
            raise ValueError(f"Expecting at least one attempt, not {attempts}")
        self.attempts = attempts

    def __call__(self, func, *args, **dargs):
        """Return func's first successful result, or raise the last InspectError."""
        for attempt in range(1, self.attempts + 1):
            try:
                return func(*args, **dargs)
            except InspectError as xcpt:
                dbg(f"Attempt {attempt}/{self.attempts} failed: {xcpt}")
                if attempt == self.attempts:
                    raise


class ManifestInspector:
    """Callable collaborator returning the platforms of an image reference."""

    def __init__(self, engine=DEFAULT_ENGINE, policy=None, inspect_fn=inspect_manifest):
        """Bind a container engine, retry policy and single-attempt inspection function."""
        if engine not in CONTAINER_ENGINES:
            raise ValueError(f"Unsupported container engine '{engine}',"
                             f" expecting one of {', '.join(CONTAINER_ENGINES)}")
        self.engine = engine
        self.policy = policy if policy is not None else RetryPolicy()
        self.inspect_fn = inspect_fn

    def __call__(self, image):
        """Return list of Platforms for image, raising InspectError once retries are exhausted."""
        return self.policy(self.inspect_fn, image, self.engine)
