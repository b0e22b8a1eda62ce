from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence

from modelci.common.container import ContainerRunner, ContainerSpec
from modelci.common.errors import ContainerOutputMissingError


log = logging.getLogger(__name__)

GGUF_CONVERT_SCRIPT = "/app/convert_hf_to_gguf.py"
LLAMA_QUANTIZE = "/app/llama-quantize"
LLAMACPP_IMAGE_REF = "ghcr.io/ggerganov/llama.cpp:full"
CONVERTED_FILE_NAME = "converted.gguf"
QUANTIZED_FILE_NAME = "quantized.gguf"


class GgufService:
    """Converts Hugging Face checkpoints to GGUF and quantizes them with llama.cpp."""

    def __init__(self, runner: ContainerRunner | None = None):
        self.runner = runner or ContainerRunner()

    def base_container(self) -> ContainerSpec:
        return ContainerSpec(image=LLAMACPP_IMAGE_REF).without_entrypoint()

    @staticmethod
    def _expect_output(path: Path) -> Path:
        if not path.is_file():
            raise ContainerOutputMissingError(path)
        return path

    def convert_to_gguf(self, source: Path, output_dir: Path, parameters: Sequence[str] = ()) -> Path:
        """Convert the model directory ``source`` to ``output_dir/converted.gguf``.

        ``parameters`` are passed through to the conversion script unchanged.
        """
        source = Path(source)
        if not source.is_dir():
            raise NotADirectoryError(f"Model directory not found: {source}")
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        cmd = ["python3", GGUF_CONVERT_SCRIPT, "/src", "--outfile", f"/out/{CONVERTED_FILE_NAME}", *parameters]
        spec = (
            self.base_container()
            .with_mount(source, "/src", read_only=True)
            .with_mount(output_dir, "/out")
        )
        self.runner.run(spec, cmd)
        log.info("Converted %s to GGUF", source)
        return self._expect_output(output_dir / CONVERTED_FILE_NAME)

    def quantize(self, source: Path, quantization: str, output_dir: Path) -> Path:
        """Quantize a GGUF file, e.g. with ``Q4_K_M``, into ``output_dir/quantized.gguf``."""
        source = Path(source)
        if not source.is_file():
            raise FileNotFoundError(f"Model file not found: {source}")
        quantization = str(quantization or "").strip()
        if not quantization:
            raise ValueError("Quantization type cannot be empty.")
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        model_name = source.name
        cmd = [LLAMA_QUANTIZE, f"/in/{model_name}", f"/out/{QUANTIZED_FILE_NAME}", quantization]
        spec = (
            self.base_container()
            .with_mount(source, f"/in/{model_name}", read_only=True)
            .with_mount(output_dir, "/out")
        )
        self.runner.run(spec, cmd)
        log.info("Quantized %s with %s", model_name, quantization)
        return self._expect_output(output_dir / QUANTIZED_FILE_NAME)
