"""Protocol core: codec, messages, registry, automation and session."""
