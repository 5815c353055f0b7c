"""Data structures shared across ezkonnect components."""
