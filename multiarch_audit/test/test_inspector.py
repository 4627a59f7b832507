#!/usr/bin/env python3

"""Verify manifest inspection, parsing and retry behaviors w/o a real container engine."""

import json
import unittest
from unittest.mock import Mock, patch

import yaml

from multiarch_audit import inspector
from multiarch_audit.inspector import InspectError, ManifestInspector, Platform, RetryPolicy


class TestBase(unittest.TestCase):

    # YAML is easier on human eyeballs, trimmed `docker manifest inspect` output
    MANIFEST_LIST_YAML = """
        schemaVersion: 2
        mediaType: application/vnd.docker.distribution.manifest.list.v2+json
        manifests:
          - digest: sha256:1111
            platform:
              architecture: amd64
              os: linux
          - digest: sha256:2222
            platform:
              architecture: s390x
              os: linux
          - digest: sha256:3333
            platform:
              architecture: ppc64le
              os: linux
    """
    MANIFEST_LIST = yaml.safe_load(MANIFEST_LIST_YAML)

    def fake_pipe(self, output, exit_status=None):
        pipe = Mock()
        pipe.read.return_value = output
        pipe.close.return_value = exit_status
        return pipe


class TestParsing(TestBase):

    def test_manifest_list(self):
        result = inspector.manifest_platforms(self.MANIFEST_LIST)
        self.assertEqual(result, [Platform("linux", "amd64"),
                                  Platform("linux", "s390x"),
                                  Platform("linux", "ppc64le")])

    def test_simple_image(self):
        manifest = {"schemaVersion": 2, "config": {"digest": "sha256:4444"}, "layers": []}
        self.assertEqual(inspector.manifest_platforms(manifest), [])

    def test_missing_platform(self):
        manifest = {"manifests": [{"digest": "sha256:5555"}]}
        self.assertEqual(inspector.manifest_platforms(manifest), [Platform("", "")])

    def test_not_an_object(self):
        for bad in ([], "manifests", 42, None):
            with self.subTest(bad=bad):
                self.assertRaisesRegex(InspectError, r"Expecting manifest JSON object",
                                       inspector.manifest_platforms, bad)


class TestEngineCmd(TestBase):

    def test_success(self):
        pipe = self.fake_pipe(json.dumps(self.MANIFEST_LIST))
        with patch('multiarch_audit.inspector.os.popen', return_value=pipe) as fake_popen:
            result = inspector.inspect_manifest("quay.io/test/img:v1", "podman")
        cmd = fake_popen.call_args[0][0]
        self.assertRegex(cmd, r"podman manifest inspect quay.io/test/img:v1$")
        self.assertEqual(len(result), 3)
        pipe.close.assert_called_once()

    def test_reference_quoted(self):
        pipe = self.fake_pipe("{}")
        with patch('multiarch_audit.inspector.os.popen', return_value=pipe) as fake_popen:
            inspector.engine_cmd("docker", "bad image; rm -rf /")
        self.assertIn("'bad image; rm -rf /'", fake_popen.call_args[0][0])

    def test_nonzero_exit(self):
        pipe = self.fake_pipe("", exit_status=256)
        with patch('multiarch_audit.inspector.os.popen', return_value=pipe):
            self.assertRaisesRegex(InspectError, r"docker manifest inspect.+exited non-zero: 256",
                                   inspector.engine_cmd, "docker", "quay.io/test/img:v1")

    def test_not_json(self):
        pipe = self.fake_pipe("no such manifest")
        with patch('multiarch_audit.inspector.os.popen', return_value=pipe):
            self.assertRaisesRegex(InspectError, r"does not parse as JSON: 'no such manifest'",
                                   inspector.engine_cmd, "docker", "quay.io/test/img:v1")


class TestRetryPolicy(unittest.TestCase):

    def test_first_attempt(self):
        func = Mock(return_value="result")
        self.assertEqual(RetryPolicy()(func, "a", b="c"), "result")
        func.assert_called_once_with("a", b="c")

    def test_second_attempt(self):
        func = Mock(side_effect=[InspectError("flaky"), "result"])
        self.assertEqual(RetryPolicy()(func, "a"), "result")
        self.assertEqual(func.call_count, 2)
        for args in func.call_args_list:
            self.assertEqual(args, (("a",), {}))

    def test_exhausted(self):
        func = Mock(side_effect=[InspectError("first"), InspectError("second"), "never"])
        self.assertRaisesRegex(InspectError, r"second", RetryPolicy(), func, "a")
        self.assertEqual(func.call_count, 2)

    def test_single_attempt(self):
        func = Mock(side_effect=[InspectError("only"), "never"])
        self.assertRaises(InspectError, RetryPolicy(attempts=1), func)
        func.assert_called_once()

    def test_other_errors_not_retried(self):
        func = Mock(side_effect=KeyError("bug"))
        self.assertRaises(KeyError, RetryPolicy(), func)
        func.assert_called_once()

    def test_invalid_attempts(self):
        for attempts in (0, -1):
            with self.subTest(attempts=attempts):
                self.assertRaises(ValueError, RetryPolicy, attempts)


class TestManifestInspector(unittest.TestCase):

    def test_engine_passed(self):
        fake_inspect = Mock(return_value=[Platform("linux", "arm64")])
        result = ManifestInspector("podman", inspect_fn=fake_inspect)("quay.io/test/img:v1")
        fake_inspect.assert_called_once_with("quay.io/test/img:v1", "podman")
        self.assertEqual(result, [Platform("linux", "arm64")])

    def test_retried_once(self):
        fake_inspect = Mock(side_effect=InspectError("down"))
        test_inspector = ManifestInspector(inspect_fn=fake_inspect)
        self.assertRaises(InspectError, test_inspector, "quay.io/test/img:v1")
        self.assertEqual(fake_inspect.call_count, 2)

    def test_unknown_engine(self):
        self.assertRaisesRegex(ValueError, r"Unsupported container engine 'rkt'",
                               ManifestInspector, "rkt")


if __name__ == "__main__":
    unittest.main()
