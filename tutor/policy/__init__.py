"""Age-tier policy configuration."""

from tutor.policy.age_policy import AGE_POLICIES, AgePolicy, get_policy

__all__ = ["AGE_POLICIES", "AgePolicy", "get_policy"]
