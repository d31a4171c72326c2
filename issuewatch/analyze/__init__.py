"""Issue analysis: severity, sentiment, risk scoring, recommendations."""
