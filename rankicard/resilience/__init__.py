"""Resilience patterns for external API calls

Circuit breakers and metrics collection protecting the sync flow against
fitness and music provider outages.
"""
