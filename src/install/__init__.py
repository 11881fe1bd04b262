"""Install orchestration."""
