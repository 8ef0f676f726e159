from valet_booking.lifecycle.state_machine import BookingLifecycle, Transition

__all__ = ["BookingLifecycle", "Transition"]
