"""Generated program instances: generation, application, editing and lifecycle."""
