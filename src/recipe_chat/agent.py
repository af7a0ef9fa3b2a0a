"""Recipe agent backed by a local GGUF model via llama.cpp."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence
from uuid import uuid4

from .types import ChatUsage

logger = logging.getLogger(__name__)


DEFAULT_SYSTEM_PROMPT = (
    "You are a friendly home-cooking assistant. Ask about taste preferences, "
    "ingredients on hand and dietary restrictions when they are unclear, then "
    "suggest one concrete recipe.\n"
    "Format replies with short '#' headings, '-' bullet lists for ingredients, "
    "numbered steps, and '---' between sections."
)


# -----------------------------
# Types & defaults
# -----------------------------

@dataclass
class Sampling:
    max_new_tokens: int = 512
    temperature: float = 0.7
    top_p: float = 0.95


@dataclass
class AgentResult:
    """What one agent call produced. Every field may be missing."""
    text: Optional[str] = None
    usage: Optional[ChatUsage] = None
    response_id: Optional[str] = None
    trace_id: Optional[str] = None


def _bool(v: Any, default: bool) -> bool:
    if v is None:
        return default
    if isinstance(v, bool):
        return v
    if isinstance(v, str):
        return v.strip().lower() in {"1", "true", "yes", "y", "on"}
    return bool(v)


def usage_from_completion(raw: Optional[Dict[str, Any]]) -> Optional[ChatUsage]:
    """Map an OpenAI-style ``usage`` block onto :class:`ChatUsage`."""
    if not raw:
        return None
    prompt_details = raw.get("prompt_tokens_details") or {}
    completion_details = raw.get("completion_tokens_details") or {}
    return ChatUsage(
        inputTokens=raw.get("prompt_tokens"),
        outputTokens=raw.get("completion_tokens"),
        totalTokens=raw.get("total_tokens"),
        cachedInputTokens=prompt_details.get("cached_tokens"),
        reasoningTokens=completion_details.get("reasoning_tokens"),
    )


# -----------------------------
# llama.cpp agent
# -----------------------------

class RecipeAgent:
    """Thin wrapper around :class:`llama_cpp.Llama` chat completion."""

    def __init__(
        self,
        llama: Any,
        *,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        sampling: Optional[Sampling] = None,
    ) -> None:
        self._llama = llama
        self.system_prompt = system_prompt.strip()
        self.sampling = sampling or Sampling()

    @classmethod
    def from_model_path(cls, model_path: str, *, system_prompt: str = DEFAULT_SYSTEM_PROMPT,
                        sampling: Optional[Sampling] = None, **kwargs: Any) -> "RecipeAgent":
        """
        Parameters
        ----------
        model_path : str
            Path to .gguf weights.
        kwargs : Any
            Passed to llama_cpp.Llama with some defaults:
              - n_threads: defaults to os.cpu_count()
              - n_gpu_layers: -1 when GPU offload is supported, else 0
              - use_mmap: default True, retried without mmap on OSError
        """
        # Lazy import so the server and tests import without the dep.
        from llama_cpp import Llama, llama_supports_gpu_offload  # type: ignore

        threads = kwargs.get("n_threads")
        if threads is None or int(threads) <= 0:
            kwargs["n_threads"] = os.cpu_count() or 1

        if kwargs.get("n_gpu_layers") is None:
            kwargs["n_gpu_layers"] = -1 if llama_supports_gpu_offload() else 0

        use_mmap = _bool(kwargs.get("use_mmap", True), True)
        kwargs["use_mmap"] = use_mmap
        kwargs.setdefault("verbose", False)

        try:
            llama = Llama(model_path=model_path, **kwargs)
        except OSError as e:
            if not use_mmap:
                raise
            logger.warning("mmap load failed, retrying without mmap: %s", e)
            kwargs["use_mmap"] = False
            llama = Llama(model_path=model_path, **kwargs)

        return cls(llama, system_prompt=system_prompt, sampling=sampling)

    def generate(self, messages: Sequence[Dict[str, str]]) -> AgentResult:
        """Run one chat completion over ``messages`` (``{role, content}`` dicts)."""
        trace_id = uuid4().hex
        chat = self._build_messages(messages)
        logger.info("Agent call trace=%s messages=%d", trace_id, len(chat))
        out = self._llama.create_chat_completion(
            messages=chat,
            max_tokens=int(self.sampling.max_new_tokens),
            temperature=float(self.sampling.temperature),
            top_p=float(self.sampling.top_p),
        )
        choices = out.get("choices") or [{}]
        text = (choices[0].get("message") or {}).get("content")
        return AgentResult(
            text=text.strip() if isinstance(text, str) else None,
            usage=usage_from_completion(out.get("usage")),
            response_id=out.get("id"),
            trace_id=trace_id,
        )

    def _build_messages(self, messages: Sequence[Dict[str, str]]) -> List[Dict[str, str]]:
        msgs = [{"role": m["role"], "content": m["content"]} for m in messages]
        if self.system_prompt and not (msgs and msgs[0]["role"] == "system"):
            msgs.insert(0, {"role": "system", "content": self.system_prompt})
        return msgs


# -----------------------------
# Convenience factory
# -----------------------------

def create_agent_from_config(cfg: Dict[str, Any]) -> RecipeAgent:
    """Create a RecipeAgent from a config dict (e.g., loaded YAML)."""
    model_cfg = (cfg or {}).get("model", {}) if isinstance(cfg, dict) else {}
    agent_cfg = (cfg or {}).get("agent", {}) if isinstance(cfg, dict) else {}
    model_dir = model_cfg.get("model_dir")
    model_path = model_cfg.get("model_path")
    if model_dir and model_path and not os.path.isabs(model_path):
        model_path = os.path.join(model_dir, model_path)

    if not model_path or not os.path.exists(model_path):
        raise FileNotFoundError(f"Model not found at: {model_path!r}")

    params = {
        "n_ctx": model_cfg.get("n_ctx", 4096),
        "n_threads": model_cfg.get("n_threads"),
        "n_gpu_layers": model_cfg.get("n_gpu_layers"),
        "use_mmap": model_cfg.get("use_mmap", True),
    }
    # Remove None entries (llama.cpp is picky)
    params = {k: v for k, v in params.items() if v is not None}

    sampling = Sampling(
        max_new_tokens=int(model_cfg.get("max_new_tokens", 512)),
        temperature=float(model_cfg.get("temperature", 0.7)),
        top_p=float(model_cfg.get("top_p", 0.95)),
    )
    system_prompt = str(agent_cfg.get("system_prompt") or DEFAULT_SYSTEM_PROMPT)
    return RecipeAgent.from_model_path(model_path, system_prompt=system_prompt, sampling=sampling, **params)
