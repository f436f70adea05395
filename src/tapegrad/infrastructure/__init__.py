"""
Concrete NumPy-backed implementations: tensor handles, the eager executor,
the gradient registry and built-in rules, the tape and the recording context.
"""
