from .evaluator import Action, can_perform, require
