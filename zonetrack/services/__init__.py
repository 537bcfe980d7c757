"""Zone analytics services.

- Roster Service: prerequisite validation and class auto-assignment
- Analytics Service: per-student analytics, zone aggregation, queries,
  exports and the HTTP adapter
"""
