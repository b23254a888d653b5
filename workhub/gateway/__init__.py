"""Worker connection gateway: auth, registry, dispatch and liveness."""
