# Services package init
"""
MathMentor Scheduling Backend — Services Layer
================================================

What:  Scheduling rules between the routes (HTTP) and the database.

Service Inventory:
    - clock:             injectable source of "now"
    - time_window:       window value object and the half-open overlap rule
    - capacity_ledger:   atomic seat reserve/release/resize
    - conflict_detector: tutor overlap queries for bookings and classes
    - identity:          student/tutor existence checks over profiles
    - ClassService:      class instance lifecycle
    - BookingService:    booking lifecycle
    - SchedulingService: façade used by the routes

Every operation takes the caller's AsyncSession, so a whole request runs in
one transaction and can be replayed by TransactionRunner.
"""
