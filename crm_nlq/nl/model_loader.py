import logging
import os
from typing import Tuple

import torch
from transformers import AutoTokenizer, AutoModelForCausalLM, AutoModelForSeq2SeqLM
from crm_nlq.settings import ORACLE_MODEL_ID, ORACLE_MAX_NEW_TOKENS, TRANSFORMERS_CACHE

log = logging.getLogger(__name__)

# Tell Hugging Face to use fast transfer if available
os.environ.setdefault("HF_HUB_ENABLE_HF_TRANSFER", "1")
TRANSFORMERS_CACHE.mkdir(parents=True, exist_ok=True)
CACHE_DIR = str(TRANSFORMERS_CACHE)

# Global singletons to avoid reloading on every request
_tokenizer = None
_model = None
_is_seq2seq = False


def _pick_device() -> str:
    # Prefer CUDA, then MPS, else CPU
    if torch.cuda.is_available():
        return "cuda"
    if (
        hasattr(torch.backends, "mps")
        and torch.backends.mps.is_available()
        and torch.backends.mps.is_built()
    ):
        return "mps"
    return "cpu"


def load_model() -> Tuple[AutoTokenizer, torch.nn.Module, bool]:
    """
    Load the intent model named by NLQ_ORACLE_MODEL_ID.
    Tries a causal LM first, then falls back to a seq2seq LM.
    The model is cached in module globals so it's only loaded once.
    """
    global _tokenizer, _model, _is_seq2seq
    if _tokenizer is not None and _model is not None:
        return _tokenizer, _model, _is_seq2seq

    device = _pick_device()
    dtype = torch.float32 if device == "cpu" else torch.float16
    log.info("loading intent model %s on %s", ORACLE_MODEL_ID, device)

    tok = AutoTokenizer.from_pretrained(
        ORACLE_MODEL_ID, use_fast=True, cache_dir=CACHE_DIR, trust_remote_code=True
    )
    # Ensure a pad token exists for generation
    if tok.pad_token_id is None:
        tok.pad_token = tok.eos_token or tok.unk_token or "</s>"

    try:
        model = AutoModelForCausalLM.from_pretrained(
            ORACLE_MODEL_ID,
            cache_dir=CACHE_DIR,
            torch_dtype=dtype,
            low_cpu_mem_usage=True,
            trust_remote_code=True,
        )
        is_seq2seq = False
    except (ValueError, OSError):
        # Not a causal architecture (e.g. T5 family)
        log.info("%s is not a causal LM, loading as seq2seq", ORACLE_MODEL_ID)
        model = AutoModelForSeq2SeqLM.from_pretrained(
            ORACLE_MODEL_ID,
            cache_dir=CACHE_DIR,
            torch_dtype=dtype,
            low_cpu_mem_usage=True,
            trust_remote_code=True,
        )
        is_seq2seq = True

    model.to(device)
    model.eval()

    _tokenizer, _model, _is_seq2seq = tok, model, is_seq2seq
    log.info("intent model ready (seq2seq=%s)", is_seq2seq)
    return _tokenizer, _model, _is_seq2seq


def _render(tok, system: str, user: str, is_seq2seq: bool) -> str:
    """Use the model's chat template when it has one, else a plain two-part prompt."""
    if not is_seq2seq and getattr(tok, "chat_template", None):
        messages = [{"role": "system", "content": system}, {"role": "user", "content": user}]
        return tok.apply_chat_template(messages, tokenize=False, add_generation_prompt=True)
    return f"{system}\n\n{user}\n\nJSON:\n"


def generate(system: str, user: str, max_new_tokens: int | None = None) -> str:
    """
    Greedy generation for a system + user prompt.
    Loads the model on first call if needed. Blocking; call it from a worker thread.
    Returns only the completion text.
    """
    tok, model, is_seq2seq = load_model()
    device = next(model.parameters()).device
    max_new = max_new_tokens or ORACLE_MAX_NEW_TOKENS

    prompt = _render(tok, system, user, is_seq2seq)
    enc = tok(prompt, return_tensors="pt", padding=False, truncation=True).to(device)

    with torch.no_grad():
        out_ids = model.generate(
            **enc,
            max_new_tokens=max_new,
            do_sample=False,     # greedy decoding
            num_beams=1,
            use_cache=True,
            eos_token_id=tok.eos_token_id or tok.pad_token_id,
            pad_token_id=tok.pad_token_id or tok.eos_token_id,
        )

    if is_seq2seq:
        return tok.decode(out_ids[0], skip_special_tokens=True).strip()
    # Causal models echo the prompt; keep only the new tokens
    prompt_len = enc["input_ids"].shape[-1]
    return tok.decode(out_ids[0][prompt_len:], skip_special_tokens=True).strip()
