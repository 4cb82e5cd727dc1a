"""Trending Spanish news summarized objectively by cross-referencing major outlets."""

NAME = "The Objective Brief"

__all__ = ["config", "models", "completion", "orchestrator"]
