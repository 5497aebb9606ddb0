# schemadoc/describer.py
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import torch
from transformers import AutoModelForCausalLM, AutoTokenizer

from schemadoc.prompts.description_prompt import build_description_prompt, postprocess_description
from schemadoc.schema_loader import Table


@dataclass(frozen=True)
class DescriptionConfig:
    model_name: str = "Qwen/Qwen2.5-1.5B-Instruct"
    max_new_tokens: int = 64
    repetition_penalty: float = 1.05
    device: Optional[str] = None  # "cuda", "cpu", etc.
    dtype: Optional[str] = None   # "float16", "bfloat16", "float32"


@dataclass(frozen=True)
class DescriptionResult:
    sentence: str
    raw: str
    prompt: str
    model_name: str
    latency_ms: int
    meta: Dict[str, Any]


def _select_device(user_device: Optional[str]) -> str:
    if user_device:
        return user_device
    return "cuda" if torch.cuda.is_available() else "cpu"


def _select_dtype(device: str, dtype_str: Optional[str]):
    if dtype_str is None:
        if device == "cuda":
            return torch.float16
        return torch.float32

    d = dtype_str.lower()
    if d in ("float16", "fp16"):
        return torch.float16
    if d in ("bfloat16", "bf16"):
        return torch.bfloat16
    if d in ("float32", "fp32"):
        return torch.float32
    raise ValueError(f"Unsupported dtype: {dtype_str}")


class TableDescriber:
    """
    Drafts the one-sentence purpose of a table with a local causal LM.
    Greedy decoding, so the same table and model give the same sentence.
    """

    def __init__(self, cfg: Optional[DescriptionConfig] = None):
        self.cfg = cfg or DescriptionConfig()

        self.device = _select_device(self.cfg.device)
        self.dtype = _select_dtype(self.device, self.cfg.dtype)

        self.tokenizer = AutoTokenizer.from_pretrained(self.cfg.model_name, use_fast=True)
        self.model = AutoModelForCausalLM.from_pretrained(
            self.cfg.model_name,
            torch_dtype=self.dtype,
            device_map="auto" if self.device == "cuda" else None,
        )

        if self.device != "cuda":
            self.model.to(self.device)

        self.model.eval()

    @torch.inference_mode()
    def describe(self, table: Table) -> DescriptionResult:
        prompt = build_description_prompt(table)

        inputs = self.tokenizer(prompt, return_tensors="pt")
        inputs = {k: v.to(self.device) for k, v in inputs.items()}

        t0 = time.time()
        out = self.model.generate(
            **inputs,
            max_new_tokens=self.cfg.max_new_tokens,
            do_sample=False,
            pad_token_id=self.tokenizer.eos_token_id,
            eos_token_id=self.tokenizer.eos_token_id,
            repetition_penalty=self.cfg.repetition_penalty,
        )
        latency_ms = int((time.time() - t0) * 1000)

        # Decode only the new tokens
        new_tokens = out[0][inputs["input_ids"].shape[1]:]
        completion = self.tokenizer.decode(new_tokens, skip_special_tokens=True).strip()

        return DescriptionResult(
            sentence=postprocess_description(completion),
            raw=completion,
            prompt=prompt,
            model_name=self.cfg.model_name,
            latency_ms=latency_ms,
            meta={
                "device": self.device,
                "dtype": str(self.dtype),
                "max_new_tokens": self.cfg.max_new_tokens,
            },
        )
