"""EnguiStudio HTTP API."""
