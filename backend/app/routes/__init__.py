# Routes package init
"""
MathMentor Scheduling Backend — API Routes Package
====================================================

Route Inventory:
    - classes.py:  /api/classes/...   (class instances and their lifecycle)
    - bookings.py: /api/bookings/...  (bookings and their lifecycle)
    - health.py:   GET /health        (service health check)

Design Principle:
    Routes are THIN: resolve the actor, choose the session strategy, call
    SchedulingService, wrap the result in ApiResponse. Business rules live
    in the services layer.
"""
