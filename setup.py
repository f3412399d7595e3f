from setuptools import setup

with open("README.md", "r") as fh:
    long_description = fh.read()

setup(
    name="vbtopics",
    version="0.1.0",
    description="Variational Bayes topic models: LDA, CTM, their filtered variants and CTPF.",
    py_modules=["topic_model", "lda", "ctm", "ctpf", "gpu_ctpf", "filtering", "corpus", "encoding",
                "newton", "aggregation", "convergence", "validation", "data_handler", "helpers", "backend",
                "logger", "kernels_numpy", "kernels_numba", "kernels_cupy"],
    package_dir={"": "src"},
    keywords=["topic models", "variational inference", "recommender systems", "python"],
    python_requires='>=3.8',
    classifiers=[
        "Development Status :: 4 - Beta",
        "Programming Language :: Python :: 3",
        "Intended Audience :: Science/Research",
        "Operating System :: OS Independent",
        "Topic :: Scientific/Engineering :: Artificial Intelligence",
    ],
    license="BSD-3-Clause License",
    long_description=long_description,
    long_description_content_type="text/markdown",
    install_requires=[
        "numpy",
        "scipy",
        "pandas",
        "tqdm",
    ],
    extras_require={
        "dev": [
            "pytest >= 3.7",
            'pytest-cov',
            'coveralls',
        ],
        "numba": ["numba"],
        "cupy": ["cupy-cuda12x"],
    },
)
