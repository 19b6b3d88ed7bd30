"""Pydantic data model for the reward engine"""
