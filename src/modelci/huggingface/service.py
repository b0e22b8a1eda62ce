"""Hugging Face downloads through huggingface-cli.

Every run installs the hub CLI into a fresh python container and downloads
into a host directory mounted as the local dir.
"""

from __future__ import annotations

import logging
from pathlib import Path

from modelci.common.container import ContainerRunner, ContainerSpec
from modelci.common.errors import ContainerExecError, ContainerOutputMissingError
from modelci.common.security import validate_relative_path


log = logging.getLogger(__name__)

PYTHON_IMAGE_REF = "cgr.dev/chainguard/python:latest-dev"
HOME_DIR = "/home/nonroot"
LOCAL_REPO_DIR = f"{HOME_DIR}/hfrepo"
HF_CLI_PATH = f"{HOME_DIR}/.local/bin/huggingface-cli"

_INSTALL = 'pip install -U "huggingface_hub[cli]" && pip install -U "huggingface_hub[hf_transfer]"'
# Repo and file path arrive as $1/$2 so they are never parsed by the shell.
_DOWNLOAD_REPO = f'{_INSTALL} && {HF_CLI_PATH} download "$1" --local-dir {LOCAL_REPO_DIR} --token "$HF_TOKEN"'
_DOWNLOAD_FILE = f'{_INSTALL} && {HF_CLI_PATH} download "$1" "$2" --local-dir {LOCAL_REPO_DIR} --token "$HF_TOKEN"'


class HuggingfaceService:
    def __init__(self, runner: ContainerRunner | None = None):
        self.runner = runner or ContainerRunner()

    def base_container(self) -> ContainerSpec:
        return (
            ContainerSpec(image=PYTHON_IMAGE_REF)
            .without_entrypoint()
            .with_workdir(HOME_DIR)
            .with_env("HF_HUB_ENABLE_HF_TRANSFER", "1")
        )

    def _run_download(self, script: str, args: list[str], token: str, output_dir: Path, what: str, repo: str) -> None:
        if not str(repo or "").strip():
            raise ValueError("Repository id cannot be empty.")
        spec = self.base_container().with_secret("HF_TOKEN", token).with_mount(output_dir, LOCAL_REPO_DIR)
        try:
            self.runner.run(spec, ["/bin/sh", "-c", script, "sh", *args])
        except ContainerExecError as exc:
            raise ContainerExecError(
                exc.command,
                exc.returncode,
                exc.stderr,
                message=f"failed to download {what} from {repo}",
            ) from exc

    def download_repo(self, repo: str, token: str, output_dir: Path) -> Path:
        """Download a whole repository and return the directory holding it."""
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        self._run_download(_DOWNLOAD_REPO, [repo], token, output_dir, "repo", repo)
        log.info("Downloaded %s to %s", repo, output_dir)
        return output_dir

    def download_file(self, repo: str, path: str, token: str, output_dir: Path) -> Path:
        """Download a single file from a repository and return its host path."""
        relative = validate_relative_path(path)
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        self._run_download(_DOWNLOAD_FILE, [repo, relative.as_posix()], token, output_dir, relative.as_posix(), repo)

        downloaded = output_dir.joinpath(*relative.parts)
        if not downloaded.exists():
            raise ContainerOutputMissingError(downloaded)
        log.info("Downloaded %s from %s to %s", relative, repo, downloaded)
        return downloaded
