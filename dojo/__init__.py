"""Martial-arts school management API"""
