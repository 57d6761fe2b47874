"""agentgate: per-client rate limiting for chat widget APIs."""
