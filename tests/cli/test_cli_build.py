"""Tests for ``apex-containers build`` CLI command."""

from __future__ import annotations

from typing import TYPE_CHECKING
from unittest.mock import AsyncMock, patch

from click.testing import CliRunner

from apex_containers.cli import main
from apex_containers.images.models import BuildResult, BuildSpec, ImageInfo

if TYPE_CHECKING:
    from pathlib import Path


def _dockerfile(tmp_path: Path) -> Path:
    f = tmp_path / "Dockerfile"
    f.write_text("FROM alpine\n")
    return f


class TestBuildCommand:
    def test_build_success(self, tmp_path: Path) -> None:
        f = _dockerfile(tmp_path)
        built = BuildResult(
            success=True,
            image_info=ImageInfo(tag="app:dev", id="0123456789ab", exists=True, size_formatted="5.2MB"),
            build_output="Successfully built 0123456789ab",
            build_duration=2.5,
            rebuilt=True,
        )

        with patch("apex_containers.images.builder.ImageBuilder") as mock_cls:
            mock_instance = mock_cls.return_value
            mock_instance.build_image = AsyncMock(return_value=built)

            runner = CliRunner()
            result = runner.invoke(
                main,
                [
                    "build", str(f), "--tag", "app:dev",
                    "--build-arg", "PY=3.12", "--build-arg", "EXTRA=a=b",
                    "--no-cache", "--project-root", str(tmp_path),
                ],
            )

            assert result.exit_code == 0
            assert "Image built" in result.output
            assert "app:dev" in result.output
            assert "Successfully built" not in result.output

            spec = mock_instance.build_image.await_args.args[0]
            assert isinstance(spec, BuildSpec)
            assert spec.image_tag == "app:dev"
            assert spec.build_args == {"PY": "3.12", "EXTRA": "a=b"}
            assert spec.no_cache is True
            assert spec.force_rebuild is False
            assert mock_cls.call_args.args[0] == str(tmp_path)

    def test_cached_build_verbose(self, tmp_path: Path) -> None:
        f = _dockerfile(tmp_path)
        cached = BuildResult(
            success=True,
            image_info=ImageInfo(tag="app:dev", exists=True),
            build_output="Using cached image (no Dockerfile changes detected)",
            rebuilt=False,
        )

        with patch("apex_containers.images.builder.ImageBuilder") as mock_cls:
            mock_cls.return_value.build_image = AsyncMock(return_value=cached)

            runner = CliRunner()
            result = runner.invoke(main, ["build", str(f), "--force", "-v"])

            assert result.exit_code == 0
            assert "Image cached" in result.output
            assert "Using cached image" in result.output
            assert mock_cls.return_value.build_image.await_args.args[0].force_rebuild is True

    def test_build_failure(self, tmp_path: Path) -> None:
        f = _dockerfile(tmp_path)
        failed = BuildResult(success=False, error="Image build failed: exit 1", build_output="Step 2/2 : RUN false")

        with patch("apex_containers.images.builder.ImageBuilder") as mock_cls:
            mock_cls.return_value.build_image = AsyncMock(return_value=failed)

            runner = CliRunner()
            result = runner.invoke(main, ["build", str(f)])

            assert result.exit_code == 1
            assert "Image build failed: exit 1" in result.output
            assert "RUN false" in result.output

    def test_bad_build_arg(self, tmp_path: Path) -> None:
        f = _dockerfile(tmp_path)

        runner = CliRunner()
        result = runner.invoke(main, ["build", str(f), "--build-arg", "NOVALUE"])

        assert result.exit_code == 2
        assert "KEY=VALUE" in result.output
