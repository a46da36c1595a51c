"""Build, test and deploy pipeline for the greeting service."""

from .main import GreetingPipeline as GreetingPipeline
