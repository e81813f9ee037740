"""LLM gateway layer.

Issues chat-completion requests to an OpenRouter-compatible backend with:
  - per-request timeout
  - auth failure detection (401/403, never retried)
  - transient-error retry through the shared retry framework
  - optional content-addressed response cache (24h TTL)
"""
