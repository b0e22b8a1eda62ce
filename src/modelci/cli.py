from __future__ import annotations

import argparse
import logging
import os
import shlex
from pathlib import Path

from modelci import __version__ as MODELCI_VERSION
from modelci.common.config import RuntimeConfig, WorkPaths
from modelci.common.container import ContainerRunner
from modelci.common.errors import ModelciError
from modelci.common.logging_utils import configure_logging
from modelci.gguf.service import GgufService
from modelci.huggingface.service import HuggingfaceService
from modelci.kit.release_fetcher import LATEST, ReleaseFetcher
from modelci.kit.service import KitOptions, KitService


log = logging.getLogger(__name__)

UNPACK_FILTER_NAMES = ("docs", "code", "model", "datasets", "kitfile")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="modelci", description="CI functions for model artifacts")
    parser.add_argument("--version", action="version", version=f"modelci {MODELCI_VERSION}")
    parser.add_argument("--log-level", default="INFO", help="Log level.")
    parser.add_argument("--log-dir", type=Path, default=None, help="Also write logs to this directory.")
    parser.add_argument("--engine", default=None, help="Container engine (docker, podman).")
    sub = parser.add_subparsers(dest="command", required=True)

    fetch = sub.add_parser("fetch-kit", help="Download, verify and unpack the kit CLI.")
    fetch.add_argument(
        "--version", "--kit-version", dest="kit_version", default=LATEST, help="Release tag or 'latest'."
    )
    fetch.add_argument("--dest", type=Path, required=True, help="Directory to unpack into.")

    kit = sub.add_parser("kit", help="Run kit against an OCI registry.")
    kit.add_argument("--registry", default="", help="OCI registry host.")
    kit.add_argument("--plain-http", action="store_true", help="Use plain HTTP for the registry.")
    kit.add_argument(
        "--version", "--kit-version", dest="kit_version", default=LATEST, help="Kit release tag or 'latest'."
    )
    kit_sub = kit.add_subparsers(dest="kit_command", required=True)

    login = kit_sub.add_parser("login")
    login.add_argument("--username", required=True)
    login.add_argument("--password-env", default="KIT_PASSWORD", help="Environment variable holding the password.")

    pack = kit_sub.add_parser("pack")
    pack.add_argument("directory", type=Path)
    pack.add_argument("reference")
    pack.add_argument("--kitfile", type=Path, default=None)

    unpack = kit_sub.add_parser("unpack")
    unpack.add_argument("reference")
    unpack.add_argument("--output", type=Path, required=True)
    unpack.add_argument(
        "--filter",
        dest="filters",
        action="append",
        default=[],
        choices=UNPACK_FILTER_NAMES,
        help="Only unpack this layer (repeatable).",
    )

    pull = kit_sub.add_parser("pull")
    pull.add_argument("reference")

    push = kit_sub.add_parser("push")
    push.add_argument("reference")

    tag = kit_sub.add_parser("tag")
    tag.add_argument("current_ref")
    tag.add_argument("new_ref")

    gguf = sub.add_parser("gguf", help="Convert and quantize models with llama.cpp.")
    gguf_sub = gguf.add_subparsers(dest="gguf_command", required=True)

    convert = gguf_sub.add_parser("convert")
    convert.add_argument("source", type=Path)
    convert.add_argument("--output", type=Path, required=True)
    convert.add_argument(
        "--params",
        default="",
        help="Extra converter arguments as one string, e.g. --params='--outtype f16'.",
    )

    quantize = gguf_sub.add_parser("quantize")
    quantize.add_argument("source", type=Path)
    quantize.add_argument("quantization")
    quantize.add_argument("--output", type=Path, required=True)

    hf = sub.add_parser("hf", help="Download from the Hugging Face hub.")
    hf.add_argument("--token-env", default="HF_TOKEN", help="Environment variable holding the token.")
    hf_sub = hf.add_subparsers(dest="hf_command", required=True)

    repo = hf_sub.add_parser("download-repo")
    repo.add_argument("repo")
    repo.add_argument("--output", type=Path, required=True)

    file_ = hf_sub.add_parser("download-file")
    file_.add_argument("repo")
    file_.add_argument("path")
    file_.add_argument("--output", type=Path, required=True)

    return parser


def _secret_from_env(name: str) -> str:
    value = os.environ.get(name, "")
    if not value:
        raise ValueError(f"Environment variable {name} is not set.")
    return value


def _run_kit(args: argparse.Namespace, runtime: RuntimeConfig, runner: ContainerRunner) -> None:
    options = KitOptions(registry=args.registry, plain_http=args.plain_http, version=args.kit_version)
    service = KitService(options, runtime, WorkPaths.default(), runner=runner)
    if args.kit_command == "login":
        service.login(args.username, _secret_from_env(args.password_env))
    elif args.kit_command == "pack":
        service.pack(args.directory, args.reference, kitfile=args.kitfile)
    elif args.kit_command == "unpack":
        out = service.unpack(args.reference, args.output, filters=[f"--{name}" for name in args.filters])
        print(out)
    elif args.kit_command == "pull":
        service.pull(args.reference)
    elif args.kit_command == "push":
        service.push(args.reference)
    elif args.kit_command == "tag":
        service.tag(args.current_ref, args.new_ref)


def _run_gguf(args: argparse.Namespace, runner: ContainerRunner) -> None:
    service = GgufService(runner=runner)
    if args.gguf_command == "convert":
        print(service.convert_to_gguf(args.source, args.output, parameters=shlex.split(args.params)))
    elif args.gguf_command == "quantize":
        print(service.quantize(args.source, args.quantization, args.output))


def _run_hf(args: argparse.Namespace, runner: ContainerRunner) -> None:
    service = HuggingfaceService(runner=runner)
    token = _secret_from_env(args.token_env)
    if args.hf_command == "download-repo":
        print(service.download_repo(args.repo, token, args.output))
    elif args.hf_command == "download-file":
        print(service.download_file(args.repo, args.path, token, args.output))


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_dir, level=args.log_level)

    try:
        runtime = RuntimeConfig.from_env()
        runner = ContainerRunner(args.engine or runtime.container_engine, runtime.container_timeout_seconds)
        if args.command == "fetch-kit":
            result = ReleaseFetcher(runtime).fetch(args.kit_version, args.dest)
            log.info("Kit %s verified (sha256 %s)", result.tag_name, result.sha256)
            print(result.binary_path)
        elif args.command == "kit":
            _run_kit(args, runtime, runner)
        elif args.command == "gguf":
            _run_gguf(args, runner)
        elif args.command == "hf":
            _run_hf(args, runner)
    except (ModelciError, OSError, ValueError) as exc:
        log.error("%s failed: %s", args.command, exc)
        return 1
    return 0
