"""Organization employees synced from SimPro and their service assignments"""
