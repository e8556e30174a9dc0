"""Provider-independent LLM calls: clients, execution, error mapping."""
