"""Resource authorization, query and validation backend."""
