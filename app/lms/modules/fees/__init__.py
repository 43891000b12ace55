"""
Course fees.

A fee is split into ordered installments; each installment walks its own small state machine
(pending/rejected -> submitted -> verified|rejected) and the fee's status is derived from them.
"""
