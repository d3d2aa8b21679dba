"""Core building blocks: configuration-free infrastructure, shared helpers and the container."""
