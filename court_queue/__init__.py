"""Club court sign-in and queueing server (MQTT-based).

People register, join a first-come-first-served waiting queue and get seated
on numbered court positions. The package keeps three things in step:
- the person roster
- the waiting queue
- the court assignments

Every change runs in a transaction that is only committed when the
consistency auditor finds nothing wrong, and subscribers are sent a view only
when its content changed.
"""
