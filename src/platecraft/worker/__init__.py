"""Queue worker that generates recipe hero images.

Modules
-------
app
    Celery application, process signals and the ``main()`` entry point.
tasks
    The ``generate_recipe_image`` task and ``submit_recipe_image_job``.
pipeline
    :class:`RecipeImagePipeline`, the Celery-independent job sequence.
context
    :class:`WorkerContext`, the resources shared by every job in a process.
"""
