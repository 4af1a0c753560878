"""Tests for the vulnerability analyzers."""

import io
import struct
import zipfile

import pytest

from apkwise.analyzers import (
    CertificatePinningAnalyzer,
    DebugModeAnalyzer,
    InsecureStorageAnalyzer,
    JanusAnalyzer,
    TaskHijackingAnalyzer,
    find_manifest,
    search_in_files,
)
from apkwise.analyzers.janus import SIGNING_BLOCK_MAGIC, has_signing_block
from apkwise.exceptions import AnalyzerError

from conftest import write_manifest, write_source


def build_apk(path, v1_signed=True, signing_block=False):
    """Write a minimal zip, optionally with a v1 signature and an APK Signing Block."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr("AndroidManifest.xml", b"\x03\x00\x08\x00")
        archive.writestr("classes.dex", b"dex\n035\x00")
        if v1_signed:
            archive.writestr("META-INF/MANIFEST.MF", "Manifest-Version: 1.0\n")
            archive.writestr("META-INF/CERT.RSA", b"\x30\x82")
    data = buffer.getvalue()

    if signing_block:
        eocd = data.rfind(b"PK\x05\x06")
        (cd_offset,) = struct.unpack_from("<I", data, eocd + 16)
        data = data[:cd_offset] + SIGNING_BLOCK_MAGIC + data[cd_offset:]
        eocd += len(SIGNING_BLOCK_MAGIC)
        data = data[:eocd + 16] + struct.pack("<I", cd_offset + len(SIGNING_BLOCK_MAGIC)) + data[eocd + 20:]

    path.write_bytes(data)
    return path


class TestHelpers:

    def test_find_manifest_prefers_resources(self, temp_workspace):
        write_source(temp_workspace, "AndroidManifest.xml", "<manifest/>")
        write_manifest(temp_workspace)

        assert find_manifest(temp_workspace) == temp_workspace / "resources" / "AndroidManifest.xml"

    def test_find_manifest_falls_back_to_root(self, temp_workspace):
        write_source(temp_workspace, "AndroidManifest.xml", "<manifest/>")

        assert find_manifest(temp_workspace) == temp_workspace / "AndroidManifest.xml"

    def test_search_in_files_format(self, temp_workspace):
        write_source(temp_workspace, "sources/a/Prefs.java", "ctx.getSharedPreferences(\"x\", 0);\n")

        assert search_in_files(temp_workspace, r"getSharedPreferences\(") == [
            "    sources/a/Prefs.java: getSharedPreferences("
        ]


class TestTaskHijackingAnalyzer:
    """Manifest launch mode checks."""

    def test_exported_single_task_is_high(self, temp_workspace):
        """Test one exported singleTask activity yields exactly one HIGH finding naming it."""
        write_manifest(temp_workspace, activities=(
            '        <activity android:name="com.example.app.LoginActivity"\n'
            '            android:launchMode="singleTask" android:exported="true"/>\n'
            '        <activity android:name="com.example.app.SettingsActivity"/>'
        ))

        findings = TaskHijackingAnalyzer().analyze(temp_workspace)
        high = [f for f in findings if "[HIGH]" in f]

        assert len(high) == 1
        assert "com.example.app.LoginActivity" in high[0]
        assert not any("[MEDIUM]" in f for f in findings)

    def test_non_exported_single_task_is_medium(self, temp_workspace):
        write_manifest(temp_workspace, activities=(
            '        <activity android:name=".Main" android:launchMode="singleTask"/>'
        ))

        findings = TaskHijackingAnalyzer().analyze(temp_workspace)

        assert len([f for f in findings if "[MEDIUM]" in f]) == 1
        assert not any("[HIGH]" in f for f in findings)

    def test_numeric_launch_mode(self, temp_workspace):
        write_manifest(temp_workspace, activities=(
            '        <activity android:name=".Main" android:launchMode="2" android:exported="true"/>'
        ))

        findings = TaskHijackingAnalyzer().analyze(temp_workspace)

        assert any("[HIGH]" in f for f in findings)

    def test_one_finding_per_vulnerable_activity(self, temp_workspace):
        """Test the count line is not emitted as a finding of its own."""
        write_manifest(temp_workspace, activities=(
            '        <activity android:name=".A" android:launchMode="singleTask" android:exported="true"/>\n'
            '        <activity android:name=".B" android:launchMode="singleTask"/>'
        ))

        findings = TaskHijackingAnalyzer().analyze(temp_workspace)

        assert len(findings) == 2
        assert not any(f.startswith("⚠ Found") for f in findings)

    def test_nothing_vulnerable(self, decompiled_tree):
        assert TaskHijackingAnalyzer().analyze(decompiled_tree) == []

    def test_missing_manifest(self, temp_workspace):
        with pytest.raises(AnalyzerError):
            TaskHijackingAnalyzer().analyze(temp_workspace)

    def test_unparsable_manifest(self, temp_workspace):
        write_source(temp_workspace, "resources/AndroidManifest.xml", "<manifest><application>")

        with pytest.raises(AnalyzerError):
            TaskHijackingAnalyzer().analyze(temp_workspace)


class TestDebugModeAnalyzer:

    def test_debuggable_manifest(self, temp_workspace):
        """Test debuggable="true" yields exactly one HIGH finding."""
        write_manifest(temp_workspace, application_attrs=' android:debuggable="true"')

        findings = DebugModeAnalyzer().analyze(temp_workspace)

        assert len(findings) == 1
        assert "[HIGH]" in findings[0]

    def test_release_manifest(self, decompiled_tree):
        assert DebugModeAnalyzer().analyze(decompiled_tree) == []

    def test_no_manifest(self, temp_workspace):
        assert DebugModeAnalyzer().analyze(temp_workspace) == []


class TestInsecureStorageAnalyzer:

    def test_shared_preferences(self, temp_workspace):
        write_source(temp_workspace, "sources/a/Store.java",
                     'prefs = ctx.getSharedPreferences("session", MODE_WORLD_READABLE);\n')

        findings = InsecureStorageAnalyzer().analyze(temp_workspace)

        # getSharedPreferences( and MODE_WORLD_READABLE each produce a finding
        assert len(findings) == 2
        assert all("[LOW]" in f for f in findings)
        assert all("sources/a/Store.java" in f for f in findings)

    def test_unencrypted_database(self, temp_workspace):
        write_source(temp_workspace, "sources/a/Db.java",
                     'db.execSQL("CREATE TABLE users (name TEXT)");\n')

        findings = InsecureStorageAnalyzer().analyze(temp_workspace)

        assert len(findings) == 1
        assert "[MEDIUM]" in findings[0]

    def test_database_with_encryption_reference(self, temp_workspace):
        write_source(temp_workspace, "sources/a/Db.java",
                     'db.execSQL("CREATE TABLE users (name TEXT)");\n')
        write_source(temp_workspace, "sources/a/Crypto.java", "Cipher c = Cipher.getInstance(\"AES\");\n")

        assert InsecureStorageAnalyzer().analyze(temp_workspace) == []


class TestCertificatePinningAnalyzer:

    def test_absent_pinning(self, decompiled_tree):
        findings = CertificatePinningAnalyzer().analyze(decompiled_tree)

        assert len(findings) == 1
        assert "[MEDIUM]" in findings[0]

    def test_pinning_present(self, decompiled_tree):
        write_source(decompiled_tree, "sources/com/example/app/Net.java",
                     'new CertificatePinner.Builder().add("example.com", "sha256/AAAA").build();\n')

        assert CertificatePinningAnalyzer().analyze(decompiled_tree) == []


class TestJanusAnalyzer:
    """Signature scheme detection on the raw archive."""

    def test_v1_only_low_min_sdk_is_high(self, decompiled_tree, temp_workspace):
        analyzer = JanusAnalyzer()
        analyzer.set_subject_path(build_apk(temp_workspace / "v1.apk"))

        findings = analyzer.analyze(decompiled_tree)

        assert len(findings) == 1
        assert "[HIGH]" in findings[0]
        assert "minSdkVersion: 21" in findings[0]

    def test_v1_only_modern_min_sdk_is_medium(self, temp_workspace):
        tree = temp_workspace / "tree"
        write_manifest(tree, min_sdk=26)
        analyzer = JanusAnalyzer()
        analyzer.set_subject_path(build_apk(temp_workspace / "v1.apk"))

        findings = analyzer.analyze(tree)

        assert len(findings) == 1
        assert "[MEDIUM]" in findings[0]

    def test_signing_block_is_not_flagged(self, decompiled_tree, temp_workspace):
        apk = build_apk(temp_workspace / "v2.apk", signing_block=True)
        analyzer = JanusAnalyzer()
        analyzer.set_subject_path(apk)

        assert has_signing_block(apk) is True
        assert analyzer.analyze(decompiled_tree) == []

    def test_unsigned_is_not_flagged(self, decompiled_tree, temp_workspace):
        analyzer = JanusAnalyzer()
        analyzer.set_subject_path(build_apk(temp_workspace / "unsigned.apk", v1_signed=False))

        assert analyzer.analyze(decompiled_tree) == []

    def test_requires_subject_path(self, decompiled_tree):
        with pytest.raises(AnalyzerError):
            JanusAnalyzer().analyze(decompiled_tree)

    def test_not_a_zip(self, decompiled_tree, apk_file):
        analyzer = JanusAnalyzer()
        analyzer.set_subject_path(apk_file)

        with pytest.raises(AnalyzerError):
            analyzer.analyze(decompiled_tree)
