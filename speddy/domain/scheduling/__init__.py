"""
Scheduling Domain

Recurring weekly templates, their dated instances and session groups.

- generator_service: materializes a viewer's calendar for a date range
- persistence_service: stores virtual instances on first change
- instance_service: eager instance generation until the school year ends
- grouping_service: group / ungroup sessions and their live instances
- cleanup_service: deletion of orphaned instances outside the read path
"""

from .router import router

__all__ = ["router"]
