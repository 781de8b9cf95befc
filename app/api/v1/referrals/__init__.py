"""Referral endpoints"""
