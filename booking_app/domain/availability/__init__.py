"""Public slot availability computed from SimPro working hours and schedules"""
