# Copyright (c) 2025.
# This file is part of HybridFG, released under the MIT License.
