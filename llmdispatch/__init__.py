"""LLM job dispatch service: query, worker, webhook and cancel endpoints."""
