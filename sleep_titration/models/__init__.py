"""
Models package exports
"""
from sleep_titration.models.sleep_observations import SleepObservation
from sleep_titration.models.prescribed_windows import PrescribedWindow
from sleep_titration.models.user_program_state import UserProgramState, ReviewStatus

__all__ = ['SleepObservation', 'PrescribedWindow', 'UserProgramState', 'ReviewStatus']
