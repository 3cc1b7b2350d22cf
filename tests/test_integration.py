import shutil
import subprocess
from pathlib import Path

import pytest

from pyfindgen import cli

requires_cmake = pytest.mark.skipif(
    shutil.which("cmake") is None, reason="cmake is not installed"
)

CONSUMER_CMAKELISTS = """\
cmake_minimum_required(VERSION 3.20)
project(Consumer LANGUAGES NONE)

list(APPEND CMAKE_MODULE_PATH "${CMAKE_CURRENT_SOURCE_DIR}/cmake")
find_package(@PACKAGE@ @MODE@)

if(@PACKAGE@_FOUND)
  get_target_property(location @PACKAGE@::@PACKAGE@ IMPORTED_LOCATION)
  get_target_property(includes @PACKAGE@::@PACKAGE@ INTERFACE_INCLUDE_DIRECTORIES)
  message(STATUS "LOCATION=${location}")
  message(STATUS "INCLUDES=${includes}")
elseif(TARGET @PACKAGE@::@PACKAGE@)
  message(FATAL_ERROR "target defined although @PACKAGE@ was not found")
else()
  message(STATUS "@PACKAGE@ NOT FOUND")
endif()
"""


def _make_prefix(root: Path) -> Path:
    prefix = root / "prefix"
    (prefix / "lib").mkdir(parents=True)
    (prefix / "include" / "bar").mkdir(parents=True)
    (prefix / "lib" / "libbar.a").write_bytes(b"")
    (prefix / "include" / "bar" / "bar.h").write_text("int bar(void);\n", encoding="utf-8")
    return prefix


def _make_consumer(root: Path, request: cli.GenerationRequest, mode: str) -> Path:
    source_dir = root / "consumer"
    source_dir.mkdir()
    contents = CONSUMER_CMAKELISTS.replace("@PACKAGE@", request.package)
    contents = contents.replace("@MODE@", mode)
    (source_dir / "CMakeLists.txt").write_text(contents, encoding="utf-8")
    cli.generate_find_module(request, source_dir / "cmake" / f"Find{request.package}.cmake")
    return source_dir


def _configure(source_dir: Path, *defines: str) -> subprocess.CompletedProcess:
    return subprocess.run(
        ["cmake", "-S", str(source_dir), "-B", str(source_dir / "build"), *defines],
        check=False,
        capture_output=True,
        text=True,
    )


@pytest.mark.integration
@requires_cmake
def test_generated_module_finds_library_under_root(tmp_path):
    prefix = _make_prefix(tmp_path)
    request = cli.GenerationRequest(
        package="Bar",
        lib_names=["bar", "libbar.a"],
        header_names=["bar.h"],
        lib_hints=["${BAR_ROOT}/lib"],
        header_hints=["${BAR_ROOT}/include"],
        header_path_suffixes=["bar"],
        no_default_path=True,
        pkg_config=False,
    )
    source_dir = _make_consumer(tmp_path, request, "REQUIRED")

    result = _configure(source_dir, f"-DBAR_ROOT={prefix.as_posix()}")

    assert result.returncode == 0, result.stderr
    assert "Found Bar" in result.stdout
    location = next(
        line for line in result.stdout.splitlines() if "LOCATION=" in line
    )
    includes = next(
        line for line in result.stdout.splitlines() if "INCLUDES=" in line
    )
    assert location.endswith("lib/libbar.a")
    assert includes.endswith("include/bar")


@pytest.mark.integration
@requires_cmake
def test_generated_module_reports_missing_library(tmp_path):
    request = cli.GenerationRequest(
        package="Qzxmissing",
        lib_names=["qzxmissing"],
        header_names=["qzxmissing.h"],
        lib_hints=[str(tmp_path / "nowhere")],
        no_default_path=True,
        pkg_config=False,
    )
    source_dir = _make_consumer(tmp_path, request, "")

    result = _configure(source_dir)

    assert result.returncode == 0, result.stderr
    assert "Qzxmissing NOT FOUND" in result.stdout


@pytest.mark.integration
@requires_cmake
def test_generated_module_traces_when_verbose(tmp_path):
    prefix = _make_prefix(tmp_path)
    request = cli.GenerationRequest(
        package="Bar",
        lib_names=["bar", "libbar.a"],
        header_names=["bar/bar.h"],
        lib_paths=[(prefix / "lib").as_posix()],
        header_paths=[(prefix / "include").as_posix()],
        no_default_path=True,
        verbose=True,
        pkg_config=False,
    )
    source_dir = _make_consumer(tmp_path, request, "REQUIRED")

    result = _configure(source_dir)

    assert result.returncode == 0, result.stderr
    assert "FindBar: searching library names bar libbar.a" in result.stdout
    assert "FindBar: found library" in result.stdout
    assert "FindBar: found header directory" in result.stdout
