"""taskdesk - message triage and skill-aware task assignment."""
