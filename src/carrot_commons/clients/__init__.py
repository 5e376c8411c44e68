"""HTTP clients and admission control."""
