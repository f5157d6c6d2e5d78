"""Finance workflows, the anomaly detector and their collaborators.

Services take a SQLAlchemy ``Session`` and raise ``encore.errors.AppError``
subclasses; routers translate nothing and let the app's exception handler
render the error body.
"""
