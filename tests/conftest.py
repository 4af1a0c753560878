# Copyright (c) 2026 Apkwise
#
# Licensed under the MIT License. See the LICENSE file for details.

import sys
import threading
from pathlib import Path
from typing import Dict, Optional, Sequence

import pytest

# Ensure src/ is on sys.path so `apkwise` is importable without installation
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from apkwise.tools.jadx import Decompiler  # noqa: E402


FAKE_GOOGLE_KEY = "AIzaSyFAKEKEY1234567890ABCDEFGHIJKLMN"

MANIFEST_TEMPLATE = """<?xml version="1.0" encoding="utf-8"?>
<manifest xmlns:android="http://schemas.android.com/apk/res/android"
    package="com.example.app"
    android:versionCode="7"
    android:versionName="1.2.3">
    <uses-sdk android:minSdkVersion="{min_sdk}" android:targetSdkVersion="33"/>
    <application android:label="Example"{application_attrs}>
{activities}
    </application>
</manifest>
"""


def write_manifest(root: Path, activities: str = "", application_attrs: str = "", min_sdk: int = 21) -> Path:
    """Write a decoded manifest where jadx puts it."""
    manifest = root / "resources" / "AndroidManifest.xml"
    manifest.parent.mkdir(parents=True, exist_ok=True)
    manifest.write_text(MANIFEST_TEMPLATE.format(
        activities=activities,
        application_attrs=application_attrs,
        min_sdk=min_sdk,
    ))
    return manifest


def write_source(root: Path, relative: str, content: str) -> Path:
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path


class FakeDecompiler(Decompiler):
    """Decompiler double that writes a fixed tree and counts invocations."""

    def __init__(self, files: Optional[Dict[str, str]] = None, exit_code: int = 0, create_sources: bool = True):
        self.files = files if files is not None else {
            "sources/com/example/app/MainActivity.java": "public class MainActivity {}\n",
        }
        self.exit_code = exit_code
        self.create_sources = create_sources
        self.calls = 0
        self._lock = threading.Lock()

    def decompile(self, package_path: Path, output_dir: Path, extra_args: Sequence[str] = ()) -> int:
        with self._lock:
            self.calls += 1
        if self.create_sources:
            for relative, content in self.files.items():
                write_source(Path(output_dir), relative, content)
        return self.exit_code


# ============================================================================
# Workspace Fixtures
# ============================================================================

@pytest.fixture
def temp_workspace(tmp_path):
    """Create a temporary workspace directory for testing"""
    workspace = tmp_path / "workspace"
    workspace.mkdir()
    return workspace


@pytest.fixture
def cache_root(tmp_path):
    return tmp_path / "cache"


@pytest.fixture
def apk_file(temp_workspace):
    """A package file; contents only matter for the content hash"""
    path = temp_workspace / "example.apk"
    path.write_bytes(b"PK\x03\x04 not really an apk " * 16)
    return path


@pytest.fixture
def decompiled_tree(temp_workspace):
    """A decompiled tree with a manifest and a couple of sources"""
    root = temp_workspace / "decompiled"
    write_manifest(root, activities='        <activity android:name=".MainActivity" android:exported="true"/>')
    write_source(root, "sources/com/example/app/MainActivity.java", """package com.example.app;

public class MainActivity extends Activity {
    private static final String TAG = "MainActivity";
}
""")
    return root


@pytest.fixture
def patterns_file(temp_workspace):
    """A small patterns YAML file"""
    path = temp_workspace / "patterns.yaml"
    path.write_text("""patterns:
  - name: Google API Key
    regex: 'AIza[0-9A-Za-z\\-_]{35}'
    confidence: high
  - name: Generic URL
    regexes:
      - 'https?://[^\\s"<>]+'
    confidence: low
""")
    return path


@pytest.fixture
def fake_decompiler():
    return FakeDecompiler()
