"""Kubernetes API access for ezkonnect."""
