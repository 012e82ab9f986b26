"""Resource quota and admission control for user development sandboxes."""
