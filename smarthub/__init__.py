"""Smart home hub for a compact base64-framed device protocol."""
