"""HTTP API for the Gravita AI router."""
