"""dohgate package"""
