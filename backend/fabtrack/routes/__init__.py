"""HTTP routers that transition jobs."""
