"""
Deployment descriptor builder for the picouncil web platform.

This package contains everything needed to describe the platform's cloud
footprint as a declaration graph:
- Immutable platform configuration and pydantic settings
- Deferred value cells and the declaration graph
- Image tag resolution and registry checks
- AWS and Cloudflare resource declarations
- Deployment topologies (ec2-tunnel, fargate-alb, hybrid)
"""
