"""Command-line client for the ezkonnect REST API."""
