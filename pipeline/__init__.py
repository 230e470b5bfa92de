"""UK house price ripple chart and London completions tables."""
