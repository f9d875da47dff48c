"""Cloudflare declarations: R2 storage, DNS records and tunnels."""
