"""CoachForge: template-cached program generation and adaptive progression."""
