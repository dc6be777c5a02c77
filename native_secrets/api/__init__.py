"""HTTP and WebSocket surface of native-secrets."""
