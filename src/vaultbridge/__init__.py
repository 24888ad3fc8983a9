"""vaultbridge -- Publish a loopback-only content server over a quick tunnel.

This package implements two cooperating halves: a minimal embedded HTTP
dispatcher bound to 127.0.0.1 that serves a fixed set of dynamic routes
with permissive CORS headers, and a supervisor that provisions and runs
``cloudflared`` to expose that server under a temporary public HTTPS
hostname.
"""

__version__ = "0.1.0"
