import warnings
from bisect import bisect_left

import numpy as np
import pysam

from fragment_store import Frag

#%%
def read_bcf_file(vcf_file,vcf_index=None):
    if vcf_index != None:
        vcf = pysam.VariantFile(vcf_file,index_filename=vcf_index)
    else:
        vcf = pysam.VariantFile(vcf_file)
    return vcf

def get_genotypes_from_vcf(vcf_file, sample=None, contig=None):
    """
    Read the variant sites of one contig of a VCF/BCF.

    Sites are numbered from 1 in file order. contig defaults to the
    contig of the first record and sample to the first sample.

    Returns:
        (snp_to_genome_pos, genotype_dict, vcf_ploidy) where
        snp_to_genome_pos[i-1] is the 1-based genome position of site i,
        genotype_dict maps site -> {allele: count} for the sample and
        vcf_ploidy is the number of alleles in the sample's genotypes
        (0 if no genotype was called).
    """
    vcf = read_bcf_file(vcf_file)

    samples = list(vcf.header.samples)
    if sample is None:
        if len(samples) == 0:
            vcf.close()
            raise ValueError(f"No samples in {vcf_file}")
        sample = samples[0]
    elif sample not in samples:
        vcf.close()
        raise ValueError(f"Sample {sample} not found in {vcf_file}")

    snp_to_genome_pos = []
    genotype_dict = {}
    vcf_ploidy = 0
    num_missing = 0

    for record in vcf:
        if contig is None:
            contig = record.chrom
        if record.chrom != contig:
            continue

        snp_to_genome_pos.append(record.pos)
        site = len(snp_to_genome_pos)

        genotype = record.samples[sample].get("GT")
        if genotype is None or any(allele is None for allele in genotype):
            num_missing += 1
            continue

        if vcf_ploidy == 0:
            vcf_ploidy = len(genotype)
        elif len(genotype) != vcf_ploidy:
            vcf.close()
            raise ValueError(f"Genotype at {record.chrom}:{record.pos} has ploidy {len(genotype)}, "
                             f"expected {vcf_ploidy}")

        counts = {}
        for allele in genotype:
            counts[allele] = counts.get(allele, 0) + 1
        genotype_dict[site] = counts

    vcf.close()

    if num_missing > 0:
        warnings.warn(f"{num_missing} sites without a full genotype for {sample} were not used for polishing")

    return (snp_to_genome_pos, genotype_dict, vcf_ploidy)

def get_variant_alleles(vcf_file, contig=None):
    """
    Genome positions (0-based) and allele sequences of the variants of
    one contig, in file order. contig defaults to the first record's.
    """
    vcf = read_bcf_file(vcf_file)

    positions = []
    alleles = []
    for record in vcf:
        if contig is None:
            contig = record.chrom
        if record.chrom != contig:
            continue
        positions.append(record.pos - 1)
        alleles.append(tuple(a.upper() for a in record.alleles))

    vcf.close()
    return (contig, np.array(positions, dtype=np.int64), alleles)

#%%
def read_to_calls(read, snp_positions, snp_alleles):
    """
    (site, allele, weight) calls of one aligned read at the SNP sites.
    Only sites whose alleles are all single bases are called, reads with
    bases matching no allele give no call at that site.
    """
    calls = []

    lo = int(np.searchsorted(snp_positions, read.reference_start, side="left"))
    hi = int(np.searchsorted(snp_positions, read.reference_end, side="left"))
    if lo == hi:
        return calls

    query_sequence = read.query_sequence
    query_qualities = read.query_qualities

    #Reference position -> query position for aligned bases
    ref_to_query = {ref_pos: query_pos for (query_pos, ref_pos)
                    in read.get_aligned_pairs(matches_only=True)}

    for i in range(lo, hi):
        #Indels and MNPs give no call
        if any(len(a) != 1 for a in snp_alleles[i]):
            continue

        query_pos = ref_to_query.get(int(snp_positions[i]))
        if query_pos is None:
            continue

        base = query_sequence[query_pos].upper()
        if base not in snp_alleles[i]:
            continue
        allele = snp_alleles[i].index(base)

        if query_qualities is not None:
            weight = 1.0 - 10 ** (-query_qualities[query_pos] / 10)
        else:
            weight = 1.0

        calls.append((i + 1, allele, weight))

    return calls

def get_frags_from_bamvcf(vcf_file, bam_file, contig=None,
                          min_mapq=1, min_calls=2):
    """
    Build fragments from the reads of a BAM file at the variant sites of
    a VCF. Secondary, supplementary, duplicate, unmapped and low mapping
    quality reads are skipped, as are reads with fewer than min_calls
    calls.
    """
    (contig, snp_positions, snp_alleles) = get_variant_alleles(vcf_file, contig=contig)

    all_frags = []
    if len(snp_positions) == 0:
        return all_frags

    with pysam.AlignmentFile(bam_file) as bam:
        counter_id = 0
        for read in bam.fetch(contig):
            if (read.is_unmapped or read.is_secondary or read.is_supplementary
                    or read.is_duplicate or read.mapping_quality < min_mapq):
                continue
            if read.query_sequence is None:
                continue

            calls = read_to_calls(read, snp_positions, snp_alleles)
            if len(calls) < min_calls:
                continue

            all_frags.append(Frag(read.query_name, counter_id, calls))
            counter_id += 1

    return all_frags
