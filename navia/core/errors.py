from __future__ import annotations

class AgentError(Exception):
    """Base des erreurs du cœur de l'agent."""

class ValidationError(AgentError):
    """Entrée de start() invalide ; rejetée avant tout changement d'état."""

class ConflictError(AgentError):
    """start() pendant un run actif, ou stop() sans run actif."""

class ParseError(AgentError):
    """Réponse du planner non conforme au schéma Decision (jamais propagée hors du parseur)."""

class ActionError(AgentError):
    """Échec d'une action navigateur (sélecteur introuvable, navigation ratée)."""

class ToolError(AgentError):
    """Outil invalide, en erreur ou hors délai."""

class FatalError(AgentError):
    """Session inutilisable ou erreur irrécupérable : le run passe en 'error'."""
