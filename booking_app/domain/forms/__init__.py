"""Booking forms: service tree, editor actions and validation"""
