"""Admission-control services over the relational store."""
