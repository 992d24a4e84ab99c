"""Concrete external collaborators: terraform, EF Core, deploy targets, HTTP probes."""
